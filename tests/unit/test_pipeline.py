"""
Unit tests for the georeferencing CLI (georef.pipeline)
"""

import json
import os
import sys

import pytest
from PIL import Image

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from georef.pipeline import image_size, load_points, main, parse_size


POINTS = [
    {"id": "a", "imageCoordinates": {"x": 0, "y": 0}, "mapCoordinates": {"lat": 0.0, "lng": 0.0}},
    {"id": "b", "imageCoordinates": {"x": 100, "y": 0}, "mapCoordinates": {"lat": 0.0, "lng": 0.001}},
    {"id": "c", "imageCoordinates": {"x": 100, "y": 100}, "mapCoordinates": {"lat": 0.001, "lng": 0.001}},
    {"id": "d", "imageCoordinates": {"x": 0, "y": 100}, "mapCoordinates": {"lat": 0.001, "lng": 0.0}},
]


@pytest.fixture
def params(tmp_path, monkeypatch):
    f = tmp_path / "params.yaml"
    f.write_text("logging:\n  level: WARNING\n")
    monkeypatch.setenv("GEOREF_CONFIG", str(f))
    return f


class TestLoaders:
    """Test cases for point and size loaders"""

    def test_parse_size(self):
        """Test WxH and W,H forms"""
        assert parse_size("2400x1800") == (2400, 1800)
        assert parse_size("640,480") == (640, 480)
        assert parse_size(None) is None
        with pytest.raises(ValueError):
            parse_size("1,2,3")

    def test_image_size_from_header(self, tmp_path):
        """Test width/height are read from the image file"""
        f = tmp_path / "plan.png"
        Image.new("L", (320, 200)).save(f)
        assert image_size(str(f)) == (320, 200)

    def test_load_json_wrapped_and_bare(self, tmp_path):
        """Test both {"controlPoints": [...]} and a bare list are accepted"""
        f1 = tmp_path / "wrapped.json"
        f1.write_text(json.dumps({"controlPoints": POINTS}))
        f2 = tmp_path / "bare.json"
        f2.write_text(json.dumps(POINTS))
        assert [p.id for p in load_points(str(f1))] == ["a", "b", "c", "d"]
        assert load_points(str(f2)) == load_points(str(f1))

    def test_load_csv_with_blanks(self, tmp_path):
        """Test blank CSV cells leave a point partial"""
        f = tmp_path / "points.csv"
        f.write_text("id,x,y,lat,lng\np1,10,20,45.0,7.0\np2,30,40,,\n")
        pts = load_points(str(f))
        assert pts[0].is_complete
        assert pts[0].image.x == 10.0
        assert pts[1].status == "image-only"

    def test_load_csv_missing_column(self, tmp_path):
        """Test a CSV without the lng column is rejected"""
        f = tmp_path / "points.csv"
        f.write_text("id,x,y,lat\np1,10,20,45.0\n")
        with pytest.raises(ValueError, match="lng"):
            load_points(str(f))


class TestMain:
    """Test cases for main()"""

    def test_writes_layer_geometry(self, tmp_path, params):
        """Test a successful run writes bounds and RMSE"""
        pts = tmp_path / "points.json"
        pts.write_text(json.dumps(POINTS))
        out = tmp_path / "out" / "layer.json"
        rc = main([str(pts), "--size", "100x100", "--out", str(out)])
        assert rc == 0
        d = json.loads(out.read_text())
        assert d["imageWidth"] == 100
        assert d["bounds"] == [[pytest.approx(0.0, abs=1e-12), pytest.approx(0.0, abs=1e-12)],
                               [pytest.approx(0.001, abs=1e-12), pytest.approx(0.001, abs=1e-12)]]
        assert d["rmse_m"] < 1e-6
        assert d["used_points"] == 4

    def test_size_from_image(self, tmp_path, params):
        """Test --image supplies the size when --size is absent"""
        img = tmp_path / "plan.png"
        Image.new("RGB", (100, 50)).save(img)
        pts = tmp_path / "points.json"
        pts.write_text(json.dumps(POINTS))
        out = tmp_path / "layer.json"
        assert main([str(pts), "--image", str(img), "--out", str(out)]) == 0
        d = json.loads(out.read_text())
        assert (d["imageWidth"], d["imageHeight"]) == (100, 50)
        assert d["bounds"][1][0] == pytest.approx(0.0005, abs=1e-12)

    def test_degenerate_exit_code(self, tmp_path, params):
        """Test collinear input exits with status 2 and writes nothing"""
        collinear = [
            {"id": str(i), "imageCoordinates": {"x": 10 * i, "y": 10 * i}, "mapCoordinates": {"lat": 1 + i, "lng": 2}}
            for i in range(3)
        ]
        pts = tmp_path / "points.json"
        pts.write_text(json.dumps(collinear))
        out = tmp_path / "layer.json"
        assert main([str(pts), "--size", "100x100", "--out", str(out)]) == 2
        assert not out.exists()

    def test_zero_sentinel_flag(self, tmp_path, params):
        """Test --zero-sentinel drops the all-zero point and leaves too few"""
        pts = tmp_path / "points.json"
        pts.write_text(json.dumps(POINTS[:3]))
        out = tmp_path / "layer.json"
        assert main([str(pts), "--size", "100x100", "--out", str(out), "--zero-sentinel"]) == 2

    def test_requires_size_or_image(self, tmp_path, params):
        """Test omitting both --size and --image is a usage error"""
        pts = tmp_path / "points.json"
        pts.write_text(json.dumps(POINTS))
        with pytest.raises(SystemExit):
            main([str(pts)])

    def test_stdout_is_pure_json_at_info(self, tmp_path, monkeypatch, capsys):
        """Test INFO logging stays off stdout when the result is printed there"""
        cfg = tmp_path / "params.yaml"
        cfg.write_text("logging:\n  level: INFO\n")
        monkeypatch.setenv("GEOREF_CONFIG", str(cfg))
        pts = tmp_path / "points.json"
        pts.write_text(json.dumps(POINTS))
        assert main([str(pts), "--size", "100x100"]) == 0
        captured = capsys.readouterr()
        d = json.loads(captured.out)
        assert d["used_points"] == 4
        assert d["bounds"][1] == [pytest.approx(0.001, abs=1e-12), pytest.approx(0.001, abs=1e-12)]
        assert "Loaded control points" in captured.err

    def test_bad_size_exit_code(self, tmp_path, params):
        """Test a malformed --size exits with status 2"""
        pts = tmp_path / "points.json"
        pts.write_text(json.dumps(POINTS))
        assert main([str(pts), "--size", "2400x"]) == 2

    def test_zero_size_exit_code(self, tmp_path, params):
        """Test a zero width exits with status 2"""
        pts = tmp_path / "points.json"
        pts.write_text(json.dumps(POINTS))
        assert main([str(pts), "--size", "0x100"]) == 2

    def test_negative_csv_coordinate_exit_code(self, tmp_path, params):
        """Test a negative pixel coordinate in the CSV exits with status 2"""
        f = tmp_path / "points.csv"
        f.write_text("id,x,y,lat,lng\np1,-5,20,45.0,7.0\n")
        assert main([str(f), "--size", "100x100"]) == 2

    def test_json_point_missing_field_exit_code(self, tmp_path, params):
        """Test a JSON point without a y coordinate exits with status 2"""
        bad = POINTS[:3] + [{"id": "e", "imageCoordinates": {"x": 5}, "mapCoordinates": {"lat": 0.0, "lng": 0.0}}]
        pts = tmp_path / "points.json"
        pts.write_text(json.dumps(bad))
        assert main([str(pts), "--size", "100x100"]) == 2
