"""
Contracts (data models).

This folder defines the request/response shapes for the payment gateway:
- initialize request/response
- verify response and status values
- the error taxonomy shared by clients and the checkout controller

Why this exists:
- Keeps mock and real clients returning the same shapes
- Lets the checkout state machine depend on stable models, not ad-hoc dicts
"""
