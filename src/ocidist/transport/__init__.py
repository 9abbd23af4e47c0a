"""Request pipeline, standard stages and bearer authentication."""
from .auth import Authenticator, Challenge, DockerAuth, StaticCredentials, parse_challenge
from .base import USER_AGENT, HttpxTransport, Pipeline, Stage, Transport, rebuild_request
from .stages import Accept, PathPrefix, Retry, Unsecure

__all__ = [
    "Accept",
    "Authenticator",
    "Challenge",
    "DockerAuth",
    "HttpxTransport",
    "PathPrefix",
    "Pipeline",
    "Retry",
    "Stage",
    "StaticCredentials",
    "Transport",
    "USER_AGENT",
    "Unsecure",
    "parse_challenge",
]
