"""
L2 Resolver — manifest → package sets → ordered stage plan.
"""
