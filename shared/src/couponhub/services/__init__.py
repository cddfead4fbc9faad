"""Coupon services."""
