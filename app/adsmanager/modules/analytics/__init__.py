"""
Synthetic campaign analytics.

Numbers here are generated from fixed ratios and a time-of-day multiplier
table; they are placeholders for dashboards, not measurements of real traffic.
"""
