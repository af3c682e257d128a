"""Rugalika Backend."""
