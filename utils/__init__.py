"""
Shared text helpers.
"""
