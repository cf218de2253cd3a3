import numpy as np
import pandas as pd
import pytest

from geostack.data.samples import SampleStore, encode_labels, read_samples
from geostack.errors import DataError


def test_encode_labels_maps_y_n_and_missing():
    labels = encode_labels(pd.Series(["Y", "N", None, " y ", "", np.nan]), "CRP")

    assert labels.iloc[0] == 1.0
    assert labels.iloc[1] == 0.0
    assert labels.iloc[3] == 1.0
    assert labels.isna().tolist() == [False, False, True, False, True, True]


def test_encode_labels_rejects_malformed_values():
    with pytest.raises(DataError, match="malformed"):
        encode_labels(pd.Series(["Y", "maybe", "N"]), "HSP")


def test_missing_columns_raise():
    frame = pd.DataFrame({"Lon": [30.0], "Lat": [-5.0], "CRP": ["Y"]})
    with pytest.raises(DataError, match="HSP"):
        SampleStore(frame=frame, target_variables=["CRP", "HSP"])


def test_read_samples_from_csv(tmp_path):
    path = tmp_path / "geos.csv"
    path.write_text("Lon,Lat,CRP,HSP\n30.1,-5.1,Y,N\n30.2,-5.2,N,\n30.3,-5.3,,Y\n")

    store = read_samples(path, ["CRP", "HSP"])

    assert len(store) == 3
    assert store.summary() == {
        "CRP": {"present": 1, "absent": 1, "missing": 1},
        "HSP": {"present": 1, "absent": 1, "missing": 1},
    }


def test_read_samples_missing_file(tmp_path):
    with pytest.raises(DataError, match="Cannot read"):
        read_samples(tmp_path / "nope.csv", ["CRP"])


def test_project_adds_coordinates():
    frame = pd.DataFrame({"Lon": [0.0, 1.0], "Lat": [0.0, 0.0], "CRP": ["Y", "N"]})
    store = SampleStore(frame=frame, target_variables=["CRP"]).project("EPSG:3857")

    assert store.crs == "EPSG:3857"
    np.testing.assert_allclose(store.x[0], 0.0, atol=1e-6)
    np.testing.assert_allclose(store.y, [0.0, 0.0], atol=1e-6)
    assert store.x[1] > 100_000


def test_coordinates_require_projection():
    frame = pd.DataFrame({"Lon": [0.0], "Lat": [0.0], "CRP": ["Y"]})
    store = SampleStore(frame=frame, target_variables=["CRP"])
    with pytest.raises(DataError, match="project"):
        store.x


def test_project_rejects_unknown_crs():
    frame = pd.DataFrame({"Lon": [0.0], "Lat": [0.0], "CRP": ["Y"]})
    store = SampleStore(frame=frame, target_variables=["CRP"])
    with pytest.raises(DataError):
        store.project("not-a-crs")
