"""Storefront operations backend: catalog, sales history, dashboard and goals."""
