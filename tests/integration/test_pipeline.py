# tests/integration/test_pipeline.py

import pytest
import numpy as np
import rasterio

from bandalgebra import evaluate, generate_index
from bandalgebra.exceptions import MissingBandError, UnknownIndexError
from bandalgebra.index import calculate_index_block, lookup
from bandalgebra.raster import (
    io,
    Raster,
    AggregationType,
    DispatchConfig,
    ProcessingMode,
    dispatch,
    determine_strategy,
    iter_tiles,
    iter_windows
)
from helpers import assert_grid_match, assert_same_pixels
from conftest import S2_WAVELENGTHS

def test_generate_index_matches_in_memory_evaluation(tmp_path, s2_geotiff):
    """
    A file computed through the engine must equal evaluate() on the loaded stack.
    """
    output = generate_index(s2_geotiff, tmp_path / "ndvi.tif", "NDVI", mode="in_memory")

    stack = io.load(s2_geotiff)
    expected = evaluate("NDVI", stack)
    written = io.load(output)

    assert written.band_names == {"ndvi": 1}
    assert np.isnan(written.nodata)
    assert_grid_match(written, stack)
    assert_same_pixels(written.data, expected.data)

@pytest.mark.parametrize("mode", ["tiled", "blocked"])
@pytest.mark.parametrize("name", ["EVI", "AWEI_sh", "BSI"])
def test_streamed_modes_equal_in_memory(tmp_path, mock_raster_factory, s2_data, mode, name):
    source = mock_raster_factory(
        "tiled_stack.tif", s2_data,
        descriptions=["B2", "B3", "B4", "B5", "B8", "B11", "B12"],
        tiled=True
    )

    in_memory = generate_index(source, tmp_path / "full.tif", name, mode="in_memory")
    streamed = generate_index(source, tmp_path / f"{mode}.tif", name, mode=mode, tile_size=16)

    full = io.load(in_memory)
    parts = io.load(streamed)

    assert parts.band_names == {name.lower(): 1}
    assert_grid_match(parts, full)
    assert_same_pixels(parts.data, full.data)

def test_wavelength_tags_are_used_without_band_names(tmp_path, mock_raster_factory, s2_data):
    source = mock_raster_factory("unnamed.tif", s2_data, wavelengths=S2_WAVELENGTHS)
    named = mock_raster_factory("named.tif", s2_data, descriptions=["B2", "B3", "B4", "B5", "B8", "B11", "B12"])

    by_wavelength = io.load(generate_index(source, tmp_path / "a.tif", "SAVI"))
    by_name = io.load(generate_index(named, tmp_path / "b.tif", "SAVI"))

    assert_same_pixels(by_wavelength.data, by_name.data)

def test_wavelengths_in_band_descriptions(tmp_path, mock_raster_factory, s2_data):
    labels = [f"{w:.0f} nm" for w in S2_WAVELENGTHS]
    source = mock_raster_factory("labelled.tif", s2_data, descriptions=labels)

    result = io.load(generate_index(source, tmp_path / "ndbi.tif", "NDBI"))

    nir = s2_data[4].astype(np.float64)
    swir1 = s2_data[5].astype(np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        expected = (swir1 - nir) / (swir1 + nir)
    assert_same_pixels(result.data[0], expected)

def test_unresolvable_bands_fail_before_writing(tmp_path, mock_raster_factory, s2_data):
    source = mock_raster_factory("anonymous.tif", s2_data)
    output = tmp_path / "never.tif"

    with pytest.raises(MissingBandError):
        generate_index(source, output, "NDVI")
    assert not output.exists()

def test_repeated_descriptions_bind_by_wavelength(tmp_path, mock_raster_factory, s2_data, s2_geotiff):
    source = mock_raster_factory(
        "repeated.tif", s2_data,
        descriptions=["reflectance"] * 7,
        wavelengths=S2_WAVELENGTHS
    )

    info = io.read_info(source)
    assert sorted(info['band_names'].values()) == list(range(1, 8))
    assert info['band_names']['reflectance'] == 1
    assert info['band_names']['Band_5'] == 5
    assert io.load(source).band_names == info['band_names']

    by_wavelength = io.load(generate_index(source, tmp_path / "a.tif", "NDVI", mode="tiled", tile_size=16))
    by_name = io.load(generate_index(s2_geotiff, tmp_path / "b.tif", "NDVI"))

    assert_same_pixels(by_wavelength.data, by_name.data)

def test_partial_bindings_skip_wavelength_matching(tmp_path, mock_raster_factory, s2_data):
    source = mock_raster_factory("unnamed.tif", s2_data, wavelengths=S2_WAVELENGTHS)

    with pytest.raises(MissingBandError) as excinfo:
        generate_index(source, tmp_path / "x.tif", "NDVI", bindings={"NIR": "Band_5"})
    assert excinfo.value.band == "B4"

    result = generate_index(source, tmp_path / "ndvi.tif", "NDVI", bindings={"NIR": "Band_5", "RED": "Band_3"})
    assert result.exists()

def test_failed_stitch_leaves_no_output(tmp_path, s2_geotiff):
    output = tmp_path / "partial.tif"
    calls = []

    def flaky_block(raster):
        calls.append(raster.shape)
        if len(calls) == 3:
            raise RuntimeError("tile failed")
        return evaluate("NDVI", raster)

    config = DispatchConfig(mode="tiled", tile_size=16, output_path=output)
    with pytest.raises(RuntimeError, match="tile failed"):
        dispatch(flaky_block, {'raster': s2_geotiff}, config=config)

    assert len(calls) == 3
    assert not output.exists()

def test_explicit_binding_to_absent_band(tmp_path, s2_geotiff):
    with pytest.raises(MissingBandError) as excinfo:
        generate_index(s2_geotiff, tmp_path / "x.tif", "NDVI", bindings={"NIR": "B8A"})
    assert excinfo.value.band == "B8A"

def test_unknown_index_fails_before_reading(tmp_path):
    with pytest.raises(UnknownIndexError):
        generate_index(tmp_path / "absent.tif", tmp_path / "x.tif", "NDXI")

def test_file_nodata_is_propagated(tmp_path, mock_raster_factory, s2_data):
    source = mock_raster_factory(
        "nodata.tif", s2_data,
        descriptions=["B2", "B3", "B4", "B5", "B8", "B11", "B12"],
        nodata=0
    )

    result = io.load(generate_index(source, tmp_path / "ndti.tif", "NDTI", fill_value=-1.5))

    assert result.nodata == -1.5
    np.testing.assert_array_equal(result.data[0, 0, :5], -1.5)

def test_save_and_load_round_trip(tmp_path, s2_raster):
    path = io.save(s2_raster, tmp_path / "stack.tif")
    loaded = io.load(path)

    assert loaded.band_names == s2_raster.band_names
    assert loaded == s2_raster

    info = io.read_info(path)
    assert info['count'] == 7
    assert info['band_names']['B8'] == 5

def test_windowed_load(s2_geotiff):
    window = rasterio.windows.Window(10, 5, 8, 4)
    tile = io.load(s2_geotiff, window=window)
    full = io.load(s2_geotiff)

    assert tile.shape == (7, 4, 8)
    np.testing.assert_array_equal(tile.data, full.data[:, 5:9, 10:18])

def test_iterators_cover_the_grid(s2_geotiff, s2_raster):
    file_tiles = list(iter_tiles(s2_geotiff, tile_size=16))
    memory_tiles = list(iter_windows(s2_raster, tile_size=16))

    assert [w for w, _ in file_tiles] == [w for w, _ in memory_tiles]
    assert sum(t.width * t.height for _, t in file_tiles) == s2_raster.width * s2_raster.height
    for (_, a), (_, b) in zip(file_tiles, memory_tiles):
        np.testing.assert_array_equal(a.data, b.data)

def test_dispatch_collect_over_in_memory_raster(s2_raster):
    index = lookup("NDVI")
    config = DispatchConfig(mode="tiled", tile_size=32, aggregation=AggregationType.COLLECT)

    results = dispatch(
        calculate_index_block,
        {'raster': s2_raster},
        static_kwargs={'formula': index.tree, 'band_mapping': index.bindings, 'band_name': 'ndvi'},
        config=config
    )

    assert len(results) == 4
    full = evaluate("NDVI", s2_raster).values
    for window, tile in results:
        row_slice, col_slice = window.toslices()
        assert_same_pixels(tile.values, full[row_slice, col_slice])

def test_dispatch_requires_inputs():
    with pytest.raises(ValueError):
        dispatch(calculate_index_block, {})

def test_strategy_selection(s2_geotiff):
    assert determine_strategy(s2_geotiff).mode == ProcessingMode.IN_MEMORY
    assert determine_strategy(s2_geotiff, user_mode="tiled").mode == ProcessingMode.TILED

    # Small stripped GeoTIFFs cannot be processed block-wise
    report = determine_strategy(s2_geotiff, user_mode="blocked")
    assert report.mode == ProcessingMode.TILED
    assert report.structure_stats.is_striped

    with pytest.raises(ValueError):
        determine_strategy(s2_geotiff, user_mode="turbo")

def test_write_window_patches_an_existing_file(tmp_path, s2_raster):
    path = io.save(evaluate("NDVI", s2_raster), tmp_path / "ndvi.tif")
    patch = evaluate("NDVI", s2_raster, fill_value=-9999.0)

    window = rasterio.windows.Window(0, 0, 5, 1)
    io.write_window(Raster(patch.values[0:1, 0:5].copy()), path, window)

    written = io.load(path)
    np.testing.assert_array_equal(written.data[0, 0, :5], -9999.0)
    assert_same_pixels(written.data[0, 1:], patch.values[1:])

def test_write_window_requires_target(tmp_path, s2_raster):
    with pytest.raises(FileNotFoundError):
        io.write_window(s2_raster, tmp_path / "absent.tif", rasterio.windows.Window(0, 0, 1, 1))
