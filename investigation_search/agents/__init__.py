"""
Agents Module

Query understanding, entity resolution, graph construction and correlation
"""
