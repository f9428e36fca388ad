"""
Shared pieces: YAML config, JSON logging, frame/pose types and small utils.
"""
