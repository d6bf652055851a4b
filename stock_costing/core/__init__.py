"""Configuration, persistence, logging and shared helpers"""
