"""ShopGuard: trust scoring, escrow and settlement for marketplace shops."""
