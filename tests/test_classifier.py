import pytest

from nii2bids.classifier import (
    classify_directory,
    classify_label,
    directory_tag,
    is_image,
    strip_image_extension,
)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("IMG_20230615093000_bold.nii.gz", "func"),
        ("IMG_20230615093000_pcasl.nii.gz", "func"),
        ("IMG_20230615093000_rest.nii", "func"),
        ("IMG_20230615093000_localizer_i00001.nii.gz", "localizer"),
        ("IMG_20230615093000_ep2d_diff.nii.gz", "dwi"),
        ("IMG_20230615093000_DTI_64dir.nii.gz", "dwi"),
        ("IMG_20230615093000_mprage.nii.gz", "anat"),
    ],
)
def test_directory_rules(name, expected):
    assert classify_directory(name) == expected


def test_directory_precedence_func_before_localizer():
    # "task" and "loc" both present: the func rule is listed first.
    assert classify_directory("IMG_task_loc.nii.gz") == "func"


def test_sidecar_extensions_go_to_dwi():
    assert classify_directory("IMG_20230615093000_series5.bval") == "dwi"
    assert classify_directory("IMG_20230615093000_series5.bvec") == "dwi"


def test_bval_sibling_marks_image_as_dwi():
    siblings = [
        "/in/IMG_20230615093000_series5.nii.gz",
        "/in/IMG_20230615093000_series5.bval",
        "/in/IMG_20230615093000_series5.json",
    ]
    assert classify_directory("/in/IMG_20230615093000_series5.nii.gz", siblings) == "dwi"
    assert classify_directory("/in/IMG_20230615093000_series6.nii.gz", siblings) == "anat"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("t1_weighted.nii", "T1w"),
        ("mprage.nii", "T1w"),
        ("sag_t1w.nii", "T1w"),
        ("t2_weighted.nii", "T2w"),
        ("t1rho.nii", "T1rho"),
        ("t1map.nii", "T1map"),
        ("t1_inplane.nii", "inplaneT1"),
        ("t2map.nii", "T2map"),
        ("t2_inplane.nii", "inplaneT2"),
        ("gre_t2star.nii", "T2star"),
        ("flair.nii", "FLAIR"),
        ("flash.nii", "FLASH"),
        ("pdmap.nii", "PDmap"),
        ("pd_t2.nii", "PDT2"),
        ("pd.nii", "PD"),
        ("angio.nii", "angio"),
        ("survey.nii", "unknown"),
    ],
)
def test_anat_labels(name, expected):
    assert classify_label(name, "anat") == expected


def test_anat_rules_are_ordered():
    # Both T1w and T1map keywords: T1w is listed first.
    assert classify_label("t1_weighted_map.nii", "anat") == "T1w"
    # "pd" with "map" must resolve to PDmap before the bare PD rule.
    assert classify_label("pd_map.nii", "anat") == "PDmap"


@pytest.mark.parametrize(
    "name, expected",
    [("run_bold.nii", "bold"), ("cbv_scan.nii", "cbv"), ("bold_phase.nii", "bold"),
     ("phase.nii", "phase"), ("asl.nii", "unknown")],
)
def test_func_labels(name, expected):
    assert classify_label(name, "func") == expected


def test_localizer_label_is_last_hyphen_field():
    assert classify_label("IMG-20230615093000-Localizer-i00001.nii.gz", "localizer") == "i00001"
    assert classify_label("scout-AX.json", "localizer") == "ax"


def test_dwi_label():
    assert classify_label("anything.nii.gz", "dwi") == "dwi"


def test_phoenix_document_is_discarded_everywhere():
    for directory in ("anat", "func", "localizer", "dwi"):
        assert classify_label("IMG_Phoenix_Document_bold.nii", directory) == "DISCARD"


def test_unknown_directory_rejected():
    with pytest.raises(ValueError):
        classify_label("x.nii", "fmap")


def test_image_helpers():
    assert is_image("a.nii")
    assert is_image("a.NII.GZ")
    assert not is_image("a.json")
    assert strip_image_extension("/x/a.nii.gz") == "/x/a"
    assert strip_image_extension("a.nii") == "a"


def test_directory_tag():
    assert directory_tag("func", "x_bold.nii.gz") == "Functional"
    assert directory_tag("dwi", "x.nii.gz") == "DTI"
    assert directory_tag("localizer", "x.nii.gz") == "Localizer"
    assert directory_tag("anat", "x_3D_mprage.nii.gz") == "3DAnatomical"
    assert directory_tag("anat", "x_mprage.nii.gz") == "Anatomical"
