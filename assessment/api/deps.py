from fastapi import Request

from assessment.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
