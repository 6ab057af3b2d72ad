from __future__ import annotations

import pytest

from vimporter.ingest.roles import AssetRole, plan_stream_roles, plan_thumbnail_roles


def test_role_keys():
    assert AssetRole.audio().key == "audio"
    assert AssetRole.video(720, 1280).key == "video_720_1280"
    assert AssetRole.thumbnail(270, 480).key == "thumbnail_270_480"
    assert AssetRole.video(720, 1280).uploaded_key("b1") == "video_720_1280_b1"


@pytest.mark.parametrize("key", ["audio", "video_720_1280", "thumbnail_270_480"])
def test_role_from_key_round_trip(key):
    assert AssetRole.from_key(key).key == key


@pytest.mark.parametrize("key", ["subtitle_1_1", "video_x_10", "video"])
def test_role_from_key_rejects_unknown(key):
    with pytest.raises(ValueError):
        AssetRole.from_key(key)


def test_role_dimensions_are_validated():
    with pytest.raises(ValueError):
        AssetRole("audio", 10, 10)
    with pytest.raises(ValueError):
        AssetRole.video(0, 1280)


def test_stream_roles_skip_heights_taller_than_source():
    roles = plan_stream_roles(720, 1280, (360, 480, 720, 1080))
    assert [role.key for role in roles] == ["audio", "video_360_640", "video_480_852", "video_720_1280"]


def test_stream_roles_fall_back_to_source_height():
    roles = plan_stream_roles(240, 426, (360, 720))
    assert [role.key for role in roles] == ["audio", "video_240_426"]


def test_thumbnail_roles_scale_height():
    roles = plan_thumbnail_roles(540, 960, (480, 960, 1440))
    assert [role.key for role in roles] == ["thumbnail_270_480", "thumbnail_540_960"]
    assert all(role.is_thumbnail for role in roles)
