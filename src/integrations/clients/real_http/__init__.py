"""
Real HTTP integration clients.

These clients talk to the payment backend over HTTP (initialize / verify).

Important:
- Must implement the same PaymentGateway interface as the mock clients
- Must return data shaped according to src/integrations/contracts/*

Switching:
The selection of mock vs real clients happens in src/integrations/clients/__init__.py only.
"""
