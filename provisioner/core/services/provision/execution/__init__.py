"""
L4 Execution — runtime state the engine holds while a plan runs.
"""
