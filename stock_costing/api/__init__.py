"""API package"""
