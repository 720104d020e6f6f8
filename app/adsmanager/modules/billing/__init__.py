"""
Packages and subscriptions.

A package is a priced tier; a subscription links a user to one package. At most
one subscription per user may be active, enforced by a partial unique index.
"""
