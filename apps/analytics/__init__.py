"""Analytics app package.

Daily counters fed by ``update_analytics`` jobs.
"""
