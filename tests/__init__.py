"""
Eco Wifi Entitlement Engine Test Suite

Tests for:
- Voucher and subscription status derivation
- Code generation and bulk issuance
- Voucher import and export
- Filtering and sorting of admin views
- Redemption and subscription administration
- Admin API endpoints

Run tests with:
    pytest tests/ -v
"""
