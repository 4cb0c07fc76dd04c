from app.services.naming import build_asset_name, safe_local_name, sanitize_field_name


def test_sanitize_field_name():
    assert sanitize_field_name("Front Side") == "front-side"
    assert sanitize_field_name("  Logo__Back!! ") == "logo-back"
    assert sanitize_field_name("") == "file"
    assert sanitize_field_name(None) == "file"


def test_build_asset_name_defaults_and_extension():
    name = build_asset_name(
        prefix="upload",
        field=None,
        index=None,
        sequence=None,
        filename="IMG_0001.JPEG",
        mime_type="image/jpeg",
    )
    assert name.render() == "upload_file_0_1.jpeg"


def test_extension_falls_back_to_mime_type():
    name = build_asset_name(prefix="upload", field="art", index=2, sequence=1, filename="blob", mime_type="application/pdf")
    assert name.render() == "upload_art_2_1.pdf"


def test_for_order_replaces_index_only():
    name = build_asset_name(prefix="upload", field="Front", index="4", sequence="2", filename="a.png", mime_type="image/png")

    assert name.for_order("1001").render() == "upload_front_1001_2.png"
    assert name.render() == "upload_front_4_2.png"


def test_safe_local_name_strips_path_and_unsafe_chars():
    out = safe_local_name("../../etc/pa:ss?wd.txt")

    ts, rnd, rest = out.split("_", 2)
    assert ts.isdigit()
    assert len(rnd) == 8
    assert rest == "pa_ss_wd.txt"
    assert "/" not in out
