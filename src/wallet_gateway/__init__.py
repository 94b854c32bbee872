"""Wallet authentication and tiered rate limiting service."""
