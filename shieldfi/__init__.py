"""ShieldFi — DeFi position risk monitoring and protection agent."""

__version__ = "0.1.0"
