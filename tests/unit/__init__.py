"""
Unit Tests Package for Parking Billing

Domain models, fee calculator, DTOs, repositories and settings.
"""
