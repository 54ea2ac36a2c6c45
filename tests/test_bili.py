import pytest
import requests
import responses

from ytyanbot.bili import (
    Converted,
    NoBilibiliLinksError,
    av2bv,
    bv2av,
    convert_bilibili_links,
    follow_redirects,
    has_video_link,
)

B23_LINK = "https://b23.tv/azH0KMi"
BILI2233_LINK = "https://bili2233.cn/azH0KMi"
MALL_B23_LINK = "https://b23.tv/S62FYLs"
VIDEO_TARGET = (
    "https://www.bilibili.com/video/BV166Fke1E5m?p=1"
    "&share_medium=android&share_source=copy_link&unique_k=azH0KMi"
)
MALL_TARGET = "https://mall.bilibili.com/detail.html?itemsId=10664158&msource=share"


def _redirect(rsps, url, location):
    rsps.add(responses.GET, url, status=302, headers={"Location": location})


def test_av_to_bv():
    assert av2bv("/av2") == "/BV1xx411c7mD"


def test_bv_to_av():
    assert bv2av("/BV1xx411c7mD") == "/av2"


@pytest.mark.parametrize("av", ["/av1", "/av170001", "/av113933939642269"])
def test_av_bv_round_trip(av):
    assert bv2av(av2bv(av)) == av


def test_bv2av_leaves_malformed_input():
    assert bv2av("/BV2xx411c7mD") == "/BV2xx411c7mD"
    assert bv2av("/BV1short") == "/BV1short"


def test_av2bv_rejects_non_digits():
    with pytest.raises(ValueError):
        av2bv("/avabc")


def test_has_video_link():
    assert has_video_link("https://www.bilibili.com/video/av170001")
    assert has_video_link("https://www.bilibili.com/video/BV1xx411c7mD")
    assert not has_video_link("https://www.bilibili.com/read/cv1")


def test_follow_redirects_returns_location():
    with responses.RequestsMock() as rsps:
        _redirect(rsps, B23_LINK, VIDEO_TARGET)
        assert follow_redirects(B23_LINK) == VIDEO_TARGET


def test_extract_http_link():
    with responses.RequestsMock() as rsps:
        _redirect(rsps, B23_LINK, VIDEO_TARGET)
        converted = convert_bilibili_links(B23_LINK)
    assert converted.can_convert()


def test_pure():
    with responses.RequestsMock() as rsps:
        _redirect(rsps, B23_LINK, VIDEO_TARGET)
        _redirect(rsps, BILI2233_LINK, VIDEO_TARGET)
        converted = convert_bilibili_links(B23_LINK)
        assert converted.can_convert()
        assert converted.has_bv
        assert converted.has_av
        assert converted.bv_text == "https://www.bilibili.com/video/BV166Fke1E5m?p=1"
        converted = convert_bilibili_links(BILI2233_LINK)
    assert converted.can_convert()
    assert converted.has_bv
    assert converted.has_av
    assert converted.av_text == "https://www.bilibili.com/video/av113933939642269?p=1"
    assert converted.need_clean


def test_mall():
    with responses.RequestsMock() as rsps:
        _redirect(rsps, MALL_B23_LINK, MALL_TARGET)
        converted = convert_bilibili_links(MALL_B23_LINK)
    assert converted.can_convert()
    assert converted.has_bv
    assert not converted.has_av
    assert converted.bv_text == "https://mall.bilibili.com/detail.html?itemsId=10664158"


def test_one_with_comment():
    text = "this is a comment " + B23_LINK
    with responses.RequestsMock() as rsps:
        _redirect(rsps, B23_LINK, VIDEO_TARGET)
        converted = convert_bilibili_links(text)
    assert converted.can_convert()
    assert converted.raw == text
    assert (
        converted.bv_text
        == "this is a comment https://www.bilibili.com/video/BV166Fke1E5m?p=1"
    )


def test_bilibili_link():
    link = (
        "https://www.bilibili.com/video/av113933939642269/"
        "?buvid=A8B976&is_story_h5=false&p=1&"
    )
    converted = convert_bilibili_links(link)
    assert converted.can_convert()
    assert converted.has_bv
    assert converted.has_av
    assert converted.bv_text == "https://www.bilibili.com/video/BV166Fke1E5m/?p=1"
    assert converted.av_text == "https://www.bilibili.com/video/av113933939642269/?p=1"


def test_no_need_convert():
    converted = convert_bilibili_links("https://www.bilibili.com/video/BV166Fke1E5m/?p=1")
    assert not converted.need_clean
    assert converted.bv_text == "https://www.bilibili.com/video/BV166Fke1E5m/?p=1"


def test_link_without_scheme_gets_https():
    converted = convert_bilibili_links("see www.bilibili.com/video/av2 now")
    assert converted.bv_text == "see https://www.bilibili.com/video/BV1xx411c7mD now"
    assert converted.av_text == "see https://www.bilibili.com/video/av2 now"


def test_non_video_page_counts_as_bv():
    converted = convert_bilibili_links("https://www.bilibili.com/read/cv1?from=search")
    assert converted.has_bv
    assert not converted.has_av
    assert converted.need_clean
    assert converted.bv_text == "https://www.bilibili.com/read/cv1"


def test_no_links_raises():
    with pytest.raises(NoBilibiliLinksError):
        convert_bilibili_links("hello world")


def test_keyword_without_link_raises():
    with pytest.raises(NoBilibiliLinksError):
        convert_bilibili_links("I like bilibili.com")


def test_failed_redirect_keeps_text():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, B23_LINK, body=requests.ConnectionError("down"))
        converted = convert_bilibili_links(B23_LINK)
    assert not converted.can_convert()
    assert converted.bv_text == B23_LINK
    assert converted.av_text == B23_LINK


def test_converted_can_convert():
    assert Converted(has_av=True).can_convert()
    assert not Converted().can_convert()