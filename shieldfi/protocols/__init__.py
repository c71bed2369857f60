"""Protocol readers: lending markets, concentrated-liquidity AMM, wallet."""
