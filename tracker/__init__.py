"""Delivery tracking API for project owners, delivery personnel and admins."""
