"""
Configuración de pytest y fixtures compartidas
"""
import copy
from unittest.mock import MagicMock

import pytest
import requests

from glbtool.config.models import GlbConfig


def make_response(status_code=200, json_data=None, text=""):
    """Respuesta HTTP falsa con la interfaz que usa glbtool"""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("no JSON")
    else:
        response.json.side_effect = lambda: copy.deepcopy(json_data)
    return response


def proxy_route(host, upstreams, policy=None):
    """Ruta de Caddy con un reverse_proxy de primer nivel"""
    handler = {
        "handler": "reverse_proxy",
        "upstreams": [{"dial": dial} for dial in upstreams],
    }
    if policy:
        handler["load_balancing"] = {"selection_policy": {"policy": policy}}
    return {"match": [{"host": [host]}], "handle": [handler]}


def subroute_route(host, upstreams):
    """Ruta de Caddy con el reverse_proxy anidado en un subroute"""
    return {
        "match": [{"host": [host]}],
        "handle": [{
            "handler": "subroute",
            "routes": [{
                "handle": [
                    {"handler": "headers"},
                    {"handler": "reverse_proxy", "upstreams": [{"dial": d} for d in upstreams]},
                ],
            }],
        }],
        "terminal": True,
    }


class FakeCaddy:
    """
    Sesión falsa que simula la API admin de Caddy

    GET devuelve el documento de servidores por URL base; PATCH registra
    el body y responde con patch_status.
    """

    def __init__(self, documents, patch_status=200, fail_get=()):
        self.documents = documents
        self.patch_status = patch_status
        self.fail_get = set(fail_get)
        self.patches = []
        self.session = MagicMock(spec=requests.Session)
        self.session.request.side_effect = self._request

    def _request(self, method, url, data=None, headers=None, auth=None, timeout=None):
        for base, document in self.documents.items():
            if not url.startswith(base):
                continue
            if method == "GET":
                if base in self.fail_get:
                    raise requests.ConnectionError("connection refused")
                return make_response(200, json_data=document)
            if method == "PATCH":
                self.patches.append((url, data, auth))
                return make_response(self.patch_status, text="patched")
        raise requests.ConnectionError(f"unknown host {url}")


@pytest.fixture
def servers_doc():
    return {
        "srv0": {
            "routes": [
                proxy_route("other.com", ["10.0.0.9:80"]),
                proxy_route("test.com", ["dc2.internal:5432", "dc1.internal:5432"], policy="round_robin"),
            ],
        },
        "srv1": {"routes": [proxy_route("unrelated.com", ["10.0.0.1:80"])]},
    }


@pytest.fixture
def glb_config():
    return GlbConfig(
        name="test",
        identifier="ctl-1",
        caddy={
            "api_urls": [
                "admin:secret@http://lb1:2019;dc1",
                "admin:secret@http://lb2:2019;dc2",
            ],
            "servers": ["test.com"],
            "lb_policy_change_sleep": 0,
        },
    )


@pytest.fixture
def no_sleep():
    return MagicMock()
