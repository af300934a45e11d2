"""Glamo API - multi-tenant salon management backend"""
