"""
OpenAPI schema customizations for drf-spectacular.

This module provides hooks to customize the generated OpenAPI schema,
including tag groupings for better documentation organization in ReDoc.

Tag naming follows the pattern: [App Name] - [Group Name]
Examples:
- Payments (create, status, list, capture)
- Payments - Refunds (refund execution)
- Payments - Config (public client configuration)
"""

PAYMENT_TAG_DESCRIPTIONS = [
    {
        "name": "Payments",
        "description": (
            "Payment creation, status checks with provider reconciliation, "
            "manual capture and owner-scoped listing."
        ),
    },
    {
        "name": "Payments - Refunds",
        "description": "Full and partial refunds bounded by the remaining balance.",
    },
    {
        "name": "Payments - Config",
        "description": "Public provider keys, currencies and per-method amount limits.",
    },
]


def group_payment_endpoints(result, generator, request, public):
    """
    Postprocessing hook to group payment endpoints and describe their tags.

    Views set tags= in @extend_schema; any payment operation that slipped
    through without one lands in the generic "Payments" group. Provider
    webhooks are plain Django views and never appear in the schema.
    """
    paths = result.get("paths", {})

    for path, methods in paths.items():
        for method, operation in methods.items():
            if not isinstance(operation, dict):
                continue

            if path.startswith("/payments/") and not operation.get("tags"):
                operation["tags"] = ["Payments"]

    result["tags"] = PAYMENT_TAG_DESCRIPTIONS
    return result
