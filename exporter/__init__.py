"""Spreadsheet export job for the storefront app."""
