"""
Mock integration clients.

These clients return fake (but realistic) gateway responses without calling
any external API. They are used when:
- no gateway secret key is configured
- we want to exercise the checkout flow end-to-end in tests or demos

Important:
- Mock clients implement the SAME PaymentGateway interface as the real client.
- Responses are shaped according to src/integrations/contracts/*
"""
