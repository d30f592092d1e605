"""Discounts app package.

Promo codes, gift cards and the loyalty cashback ledger. Each source
has a resolver that only quotes (``quote``) and a separate mutating
``commit`` called from the booking's paid transition, so a discount is
never consumed by a booking that does not settle.
"""
