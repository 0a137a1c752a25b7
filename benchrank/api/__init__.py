"""
BenchRank HTTP API.
"""
