"""
Tests de resolución de rutas de Caddy
"""
import pytest

from glbtool.caddy.routes import find_route, has_exact_host, has_reverse_proxy, iter_reverse_proxies
from glbtool.core.errors import RouteNotFoundError
from tests.conftest import proxy_route, subroute_route


class TestHasExactHost:
    def test_exact_match(self):
        assert has_exact_host(proxy_route("test.com", ["a:1"]), "test.com")

    def test_no_wildcard_or_suffix_match(self):
        route = {"match": [{"host": ["*.test.com", "www.test.com"]}]}
        assert not has_exact_host(route, "test.com")

    def test_any_match_block(self):
        route = {"match": [{"path": ["/x"]}, {"host": ["a.com", "test.com"]}]}
        assert has_exact_host(route, "test.com")

    def test_missing_match(self):
        assert not has_exact_host({"handle": []}, "test.com")


class TestReverseProxies:
    def test_top_level(self):
        route = proxy_route("test.com", ["a:1", "b:2"])
        assert has_reverse_proxy(route)
        assert len(list(iter_reverse_proxies(route))) == 1

    def test_nested_in_subroute(self):
        route = subroute_route("test.com", ["a:1", "b:2"])
        handlers = list(iter_reverse_proxies(route))
        assert len(handlers) == 1
        assert handlers[0]["upstreams"][0]["dial"] == "a:1"

    def test_file_server_only(self):
        route = {"match": [{"host": ["test.com"]}], "handle": [{"handler": "file_server"}]}
        assert not has_reverse_proxy(route)


class TestFindRoute:
    def test_returns_index_of_first_match(self, servers_doc):
        index, route = find_route(servers_doc, "srv0", "test.com")
        assert index == 1
        assert route["match"][0]["host"] == ["test.com"]

    def test_skips_route_without_reverse_proxy(self):
        servers = {"srv0": {"routes": [
            {"match": [{"host": ["test.com"]}], "handle": [{"handler": "static_response"}]},
            subroute_route("test.com", ["a:1"]),
        ]}}
        index, _ = find_route(servers, "srv0", "test.com")
        assert index == 1

    def test_missing_server(self, servers_doc):
        with pytest.raises(RouteNotFoundError, match="server key srv9 not found"):
            find_route(servers_doc, "srv9", "test.com")

    def test_server_not_object(self):
        with pytest.raises(RouteNotFoundError, match="is not an object"):
            find_route({"srv0": []}, "srv0", "test.com")

    def test_routes_missing(self):
        with pytest.raises(RouteNotFoundError, match="has no routes"):
            find_route({"srv0": {"listen": [":443"]}}, "srv0", "test.com")

    def test_routes_not_list(self):
        with pytest.raises(RouteNotFoundError, match="routes is not an array"):
            find_route({"srv0": {"routes": {}}}, "srv0", "test.com")

    def test_no_match(self, servers_doc):
        with pytest.raises(RouteNotFoundError, match="no route matched host=test.com"):
            find_route(servers_doc, "srv1", "test.com")
