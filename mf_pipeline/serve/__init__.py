"""HTTP serving for trained rating models."""
