"""Cluster platform login and authorization-matrix synchronization service."""
