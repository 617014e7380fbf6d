import pytest

from learnix_lab.execution.libraries import (
    SUPPORTED_LIBRARIES,
    scan_imports,
    supported_module_names,
    unsupported_module_message,
    validate_library_table,
)


def test_scan_detects_import_and_require_forms_in_order() -> None:
    code = "\n".join(
        [
            "import React, { useState } from 'react';",
            'const moment = require("moment");',
            "import { v4 as uuidv4 } from 'uuid';",
            "import _ from 'lodash';",
            "import _again from 'lodash';",
        ]
    )

    found = scan_imports(code, SUPPORTED_LIBRARIES)

    assert [lib.name for lib in found] == ["moment", "uuid", "lodash"]


def test_scan_skips_host_and_unknown_modules() -> None:
    code = "import ReactDOM from 'react-dom';\nimport leftPad from 'left-pad';"

    assert scan_imports(code, SUPPORTED_LIBRARIES) == []


def test_scan_handles_multiline_named_imports() -> None:
    code = "import {\n  get,\n  post,\n} from 'axios';"

    assert [lib.global_name for lib in scan_imports(code, SUPPORTED_LIBRARIES)] == ["axios"]


def test_supported_names_start_with_host_modules() -> None:
    assert supported_module_names(SUPPORTED_LIBRARIES) == [
        "react",
        "react-dom",
        "lodash",
        "moment",
        "axios",
        "uuid",
    ]


def test_unsupported_message_lists_every_module() -> None:
    message = unsupported_module_message("left-pad", SUPPORTED_LIBRARIES)

    assert message == (
        "Module 'left-pad' not found. Supported modules are: "
        "react, react-dom, lodash, moment, axios, uuid"
    )


def test_validate_library_table_builds_descriptors() -> None:
    table = validate_library_table({"dayjs": {"url": " https://cdn.example/dayjs.js ", "global": "dayjs"}})

    assert table["dayjs"].url == "https://cdn.example/dayjs.js"
    assert table["dayjs"].global_name == "dayjs"


@pytest.mark.parametrize(
    "raw",
    [
        ["lodash"],
        {"lodash": "https://cdn.example/lodash.js"},
        {"lodash": {"global": "_"}},
        {"lodash": {"url": "https://cdn.example/lodash.js", "global": "not-valid"}},
        {"react": {"url": "https://cdn.example/react.js", "global": "React"}},
    ],
)
def test_validate_library_table_rejects_bad_entries(raw) -> None:
    with pytest.raises(ValueError):
        validate_library_table(raw)
