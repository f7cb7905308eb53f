import pytest
import requests

from data_sources.error_handling import UpstreamUnavailable, ValidationError
from data_sources.osm_api import OverpassClient, build_element_query, build_healthcare_query
from data_sources.retry_config import RetryConfig


def _client(settings, session, no_retry):
    return OverpassClient(settings, session=session,
                          retry_configs={"healthcare": no_retry, "details": no_retry})


def test_healthcare_query_shape():
    query = build_healthcare_query(40.7128, -74.006, 5000, timeout_s=30)
    assert "[out:json][timeout:30];" in query
    for selector in ('node["amenity"="hospital"](around:5000,40.7128,-74.006);',
                     'way["amenity"="clinic"](around:5000,40.7128,-74.006);',
                     'relation["amenity"="hospital"](around:5000,40.7128,-74.006);',
                     'node["amenity"="doctors"]',
                     'way["healthcare"]',
                     'node["social_facility"="healthcare"]'):
        assert selector in query
    assert query.rstrip().endswith("out body;\n    >;\n    out skel qt;")


def test_element_query_shape():
    query = build_element_query("way", 123456)
    assert "way(123456);" in query
    assert "out skel qt;" in query


def test_query_posts_to_first_endpoint(settings, fake_session, fake_response, no_retry):
    elements = [{"type": "node", "id": 1, "lat": 40.7, "lon": -74.0, "tags": {"amenity": "clinic"}}]
    fake_session.post.return_value = fake_response({"elements": elements})

    result = _client(settings, fake_session, no_retry).query_healthcare_facilities(40.7128, -74.006, 10000)

    assert result == elements
    args, kwargs = fake_session.post.call_args
    assert args[0] == settings.overpass_urls[0]
    assert "(around:10000,40.7128,-74.006)" in kwargs["data"]["data"]
    assert kwargs["timeout"] == 30.0


def test_retry_rotates_endpoints(settings, fake_session, fake_response):
    fake_session.post.side_effect = [
        requests.exceptions.ConnectionError("refused"),
        fake_response({"elements": []}),
    ]
    retry = RetryConfig(max_attempts=2, base_wait=0.0, max_wait=0.0)
    client = OverpassClient(settings, session=fake_session, retry_configs={"healthcare": retry})

    assert client.query_healthcare_facilities(40.7, -74.0, 1000) == []
    urls = [c.args[0] for c in fake_session.post.call_args_list]
    assert urls == settings.overpass_urls


def test_remark_timeout_is_upstream_unavailable(settings, fake_session, fake_response, no_retry):
    fake_session.post.return_value = fake_response(
        {"elements": [], "remark": "runtime error: Query timed out in \"query\" at line 3 after 26 seconds."}
    )
    with pytest.raises(UpstreamUnavailable) as exc:
        _client(settings, fake_session, no_retry).query_healthcare_facilities(40.7, -74.0, 1000)
    assert exc.value.api_name == "overpass"


def test_missing_elements_is_upstream_unavailable(settings, fake_session, fake_response, no_retry):
    fake_session.post.return_value = fake_response({"version": 0.6})
    with pytest.raises(UpstreamUnavailable):
        _client(settings, fake_session, no_retry).query_healthcare_facilities(40.7, -74.0, 1000)


def test_non_positive_radius_rejected(settings, fake_session, no_retry):
    with pytest.raises(ValidationError):
        _client(settings, fake_session, no_retry).query_healthcare_facilities(40.7, -74.0, 0)
    fake_session.post.assert_not_called()


def test_get_element_validates_type(settings, fake_session, no_retry):
    with pytest.raises(ValidationError):
        _client(settings, fake_session, no_retry).get_element("area", 1)


def test_get_element(settings, fake_session, fake_response, no_retry):
    fake_session.post.return_value = fake_response({"elements": [{"type": "node", "id": 42}]})
    result = _client(settings, fake_session, no_retry).get_element("node", 42)
    assert result == [{"type": "node", "id": 42}]
    assert "node(42);" in fake_session.post.call_args.kwargs["data"]["data"]
