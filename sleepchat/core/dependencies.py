from fastapi import Request

from sleepchat.engine import Engine


def get_engine(request: Request) -> Engine:
    return request.app.state.engine
