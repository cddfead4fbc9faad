"""HTTP API for coupon management and redemption."""
