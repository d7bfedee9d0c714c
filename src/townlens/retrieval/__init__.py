"""Upstream data access: e-Stat, reinfolib, GSI, and the shared response cache."""
