"""Deterministic shard placement and single node failover modeling"""
