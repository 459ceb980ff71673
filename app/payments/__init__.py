"""
Payments app for multi-provider payment orchestration.

This app handles:
- Payment creation through MoMo, ZaloPay, VNPay, Stripe and PayPal
- Status reconciliation from webhooks, polls and captures
- Full and partial refunds against the remaining balance
- An append-only audit trail per payment

Layout:
    - adapters/: One adapter per provider behind a common interface
    - ledger/: PaymentLedger, the only writer of Payment status
    - services/: PaymentOrchestrator, ReconciliationService, RefundService
    - webhooks/: Provider callback parsing and the webhook endpoint

Usage:
    from payments.services import CreatePaymentRequest, PaymentOrchestrator

    result = PaymentOrchestrator.create_payment(
        user,
        CreatePaymentRequest(provider="momo", amount=Decimal("50000"), currency="VND"),
    )
"""
