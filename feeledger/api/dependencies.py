from fastapi import Request

from feeledger.billing.coordinator import FeeCoordinator
from feeledger.billing.gateway import PaymentGateway


def get_coordinator(request: Request) -> FeeCoordinator:
    return request.app.state.coordinator


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway
