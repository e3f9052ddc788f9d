"""
tka_invoice/blueprints

One package per UI area; each exposes its Blueprint from routes.py.
"""
