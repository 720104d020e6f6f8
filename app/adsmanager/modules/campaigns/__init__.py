"""
Campaigns module.

A campaign is a named advertising effort with a budget and one or more ads.
Status moves between draft, active and paused on user request; activation is
guarded by the presence of at least one complete ad.
"""
