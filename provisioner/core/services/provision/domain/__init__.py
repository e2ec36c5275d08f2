"""
L1 Domain — pure plan and artifact rules.

NO subprocess calls, NO filesystem access. Pure input→output.
"""
