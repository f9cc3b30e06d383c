"""
Handlers registered at import -- worker processes import this module to resolve them
"""

from fanout.handlers import handler


@handler("sample.double")
def double(x):
    return 2 * x


@handler("sample.answer")
def answer():
    return 42
