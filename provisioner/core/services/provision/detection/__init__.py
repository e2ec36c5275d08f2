"""
L3 Detection — read-only queries of the host being provisioned.
"""
