"""Recipes for the Chicago crime dataset."""
