"""Coupon validation, redemption and bulk import core."""
