import pytest

from autozoom.errors import MalformedMeasurement
from autozoom.metrics import font_size, margin
from autozoom.metrics.types import CenteredContainer, ContentDimensions, PageInfo, parse_page_info


def make_page(**kwargs) -> PageInfo:
    return PageInfo(**kwargs)


def test_first_quartile_walks_sizes_in_order():
    # 12 Zeichen insgesamt -> Position 3
    assert font_size.first_quartile({16: 9, 10: 2, 12: 1}) == 16
    assert font_size.first_quartile({10: 4, 16: 8}) == 10
    assert font_size.first_quartile({}) is None


def test_text_confidence():
    assert font_size.text_confidence(80, 20) == 1.0
    assert font_size.text_confidence(30, 70) == pytest.approx(0.3)
    assert font_size.text_confidence(0, 0) == 0.0


def test_font_size_metric_scales_to_ideal_size():
    page = make_page(font_size_distribution={12: 100, 18: 20}, text_area=500, object_area=100)
    metric = font_size.compute(page, ideal_font_size=16, weight=8)
    assert metric.value == pytest.approx(16 / 12)
    assert metric.confidence == 1.0
    assert metric.weight == 8


def test_font_size_metric_without_text_has_no_confidence():
    page = make_page(font_size_distribution={}, text_area=0, object_area=300)
    metric = font_size.compute(page, ideal_font_size=16, weight=8)
    assert metric.strength == 0


def test_margin_metric_fills_content_width():
    page = make_page(
        content_dimensions={"width": 1600, "height": 1000},
        centered_containers=[
            CenteredContainer(width=800, height=600),
            CenteredContainer(width=1200, height=300, relative=True),
        ],
    )
    metric = margin.compute(page, current_zoom=1.0, ideal_page_width=1.0, weight=4)
    assert metric.value == pytest.approx(2.0)
    assert metric.confidence == pytest.approx(0.6)


def test_margin_metric_accounts_for_current_zoom():
    # bei Zoom 2.0 ist der Inhalt nur halb so breit (CSS-Pixel)
    page = make_page(
        content_dimensions={"width": 800, "height": 1000},
        centered_containers=[CenteredContainer(width=1000, height=1000)],
    )
    metric = margin.compute(page, current_zoom=2.0, ideal_page_width=0.9, weight=4)
    assert metric.value == pytest.approx(800 * 0.9 / 500)
    assert metric.confidence == 1.0


def test_margin_metric_ignores_relative_containers_only():
    page = make_page(
        content_dimensions={"width": 1600, "height": 1000},
        centered_containers=[CenteredContainer(width=800, height=600, relative=True)],
    )
    assert margin.compute(page, 1.0, 1.0, 4).strength == 0


def test_parse_page_info_from_content_script_message():
    page = parse_page_info(
        {
            "fontSizeDistribution": {"16": 120, "12": 30},
            "textArea": 1000.5,
            "objectArea": 20,
            "contentDimensions": {"height": 900, "width": 1280},
            "centeredContainers": [{"width": 960, "height": 850, "relative": False}],
        }
    )
    assert page.font_size_distribution == {16.0: 120, 12.0: 30}
    assert page.content_dimensions.width == 1280
    assert page.centered_containers[0].width == 960


def test_parse_page_info_rejects_garbage():
    with pytest.raises(MalformedMeasurement):
        parse_page_info({"fontSizeDistribution": {"16": -1}})
    with pytest.raises(MalformedMeasurement):
        parse_page_info({"centeredContainers": [{"height": 10}]})


@pytest.mark.parametrize(
    "raw",
    [
        {"contentDimensions": {"height": -1000, "width": 1000}},
        {"contentDimensions": {"height": 1000, "width": float("inf")}},
        {"centeredContainers": [{"width": -250, "height": 500}]},
        {"centeredContainers": [{"width": 250, "height": float("nan")}]},
        {"textArea": float("inf")},
    ],
)
def test_parse_page_info_rejects_impossible_geometry(raw):
    with pytest.raises(MalformedMeasurement):
        parse_page_info(raw)


def test_margin_confidence_stays_within_bounds():
    # ungeprüfte Daten, z.B. aus model_construct
    page = PageInfo.model_construct(
        content_dimensions=ContentDimensions.model_construct(height=-1000, width=1000),
        centered_containers=[CenteredContainer(width=250, height=500)],
    )
    metric = margin.compute(page, current_zoom=1.0, ideal_page_width=1.0, weight=4)
    assert metric.confidence == 0.0
    assert metric.strength == 0
