import time

import pytest
from fastapi.testclient import TestClient

from realtime_heatmap.app import app, build_publisher, handle_client_message, map_init_payload
from realtime_heatmap.config import Settings
from realtime_heatmap.feeds import FirebaseStreamPublisher, InMemoryPublisher
from realtime_heatmap.renderer import RemoteRenderer

from conftest import BASEMAP_LAYERS, SCENARIO_SNAPSHOT


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c


class TestHttp:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"ok": True, "views": 0, "publisher": "memory"}

    def test_snapshot_is_validated_geojson(self, client):
        client.app.state.publisher.publish(SCENARIO_SNAPSHOT)
        data = client.get("/snapshot").json()
        assert data["type"] == "FeatureCollection"
        assert len(data["features"]) == 1
        assert data["features"][0]["geometry"]["coordinates"] == [2.0, 1.0]

    def test_snapshot_drops_coordinate_too_large_for_float(self, client):
        client.app.state.publisher.publish({"a": {"lat": 10 ** 400, "lon": 2}, "b": {"lat": 1, "lon": 2}})
        r = client.get("/snapshot")
        assert r.status_code == 200
        assert [f["properties"]["incident_id"] for f in r.json()["features"]] == ["b"]

    def test_snapshot_empty_when_no_data(self, client):
        assert client.get("/snapshot").json() == {"type": "FeatureCollection", "features": []}


class TestMapSocket:
    def test_full_session(self, client):
        client.app.state.publisher.publish(SCENARIO_SNAPSHOT)
        with client.websocket_connect("/ws") as ws:
            init = ws.receive_json()
            assert init["type"] == "map.init"
            assert init["data"]["center"] == [36.8219, -1.2921]

            ws.send_json({"type": "map.ready", "data": {"layers": BASEMAP_LAYERS}})
            msgs = [ws.receive_json() for _ in range(5)]
            assert [m["type"] for m in msgs] == [
                "source.add", "layer.add", "layer.add", "events.listen", "events.listen",
            ]
            assert msgs[1]["data"]["layer"]["id"] == "heatmap"
            assert msgs[1]["data"]["before"] == "settlement-label"
            feature = msgs[0]["data"]["source"]["data"]["features"][0]

            ws.send_json({"type": "pointer.move",
                          "data": {"layer": "points", "features": [feature], "lngLat": [2.0, 1.0]}})
            add = ws.receive_json()
            assert add["type"] == "overlay.add"
            for text in ("X", "Crash", "N/A"):
                assert text in add["data"]["html"]

            ws.send_json({"type": "pointer.leave", "data": {"layer": "points"}})
            remove = ws.receive_json()
            assert remove == {"type": "overlay.remove", "data": {"id": add["data"]["id"]}}

    def test_bad_frames_get_an_error_and_keep_the_socket(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json")
            assert ws.receive_json()["type"] == "error"
            ws.send_json({"type": "map.explode", "data": {}})
            assert ws.receive_json()["type"] == "error"
            ws.send_json({"type": "pointer.move", "data": {"features": []}})
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "map.ready", "data": {"layers": []}})
            for feature in (
                {"geometry": {"coordinates": [None, 1]}, "properties": {}},
                {"geometry": {"coordinates": [1, 1]}, "properties": "oops"},
                "not a feature",
            ):
                ws.send_json({"type": "pointer.move", "data": {"layer": "points", "features": [feature]}})
                assert ws.receive_json()["type"] == "error"
            assert client.get("/health").json()["views"] == 1

    def test_disconnect_drops_the_view(self, client):
        client.app.state.publisher.publish(SCENARIO_SNAPSHOT)
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "map.ready", "data": {"layers": []}})
            ws.receive_json()  # source.add, so the subscription is live
        # the server notices the close on its own loop
        for _ in range(100):
            if client.app.state.publisher.subscriber_count == 0:
                break
            time.sleep(0.01)
        assert client.app.state.publisher.subscriber_count == 0
        assert client.get("/health").json()["views"] == 0


class TestHelpers:
    def test_build_publisher_memory_without_url(self):
        assert isinstance(build_publisher(Settings()), InMemoryPublisher)

    def test_build_publisher_firebase(self):
        pub = build_publisher(Settings(firebase_database_url="https://x.firebaseio.com", firebase_path="inc"))
        assert isinstance(pub, FirebaseStreamPublisher)
        assert pub.url == "https://x.firebaseio.com/inc.json"

    def test_map_init_payload(self):
        payload = map_init_payload(Settings(mapbox_access_token="pk.test", map_zoom=9))
        assert payload["accessToken"] == "pk.test"
        assert payload["zoom"] == 9

    def test_ready_twice_is_ignored(self):
        r = RemoteRenderer()
        handle_client_message(r, {"type": "map.ready", "data": {"layers": BASEMAP_LAYERS}})
        handle_client_message(r, {"type": "map.ready", "data": {"layers": []}})
        assert len(r.get_style_layers()) == len(BASEMAP_LAYERS)
