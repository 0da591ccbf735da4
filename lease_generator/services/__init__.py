"""Pipeline services"""
