"""GitHub organization scanning and policy evaluation."""
