"""Test suite for Parking Billing"""
