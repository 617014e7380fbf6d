from learnix_lab.diagnostics import ErrorMarker, extract_error_markers


def test_python_traceback_points_at_innermost_frame() -> None:
    stderr = (
        "Traceback (most recent call last):\n"
        '  File "main.py", line 6, in <module>\n'
        "    total(items)\n"
        '  File "main.py", line 3, in total\n'
        "    return sum(x for x in itemz)\n"
        "NameError: name 'itemz' is not defined\n"
    )

    assert extract_error_markers(stderr, "python") == [
        ErrorMarker(line=3, column=None, message="NameError: name 'itemz' is not defined")
    ]


def test_c_compiler_errors_skip_warnings() -> None:
    stderr = (
        "main.c:2:10: warning: unused variable 'y'\n"
        "main.c:5:3: error: expected ';' before 'return'\n"
    )

    assert extract_error_markers(stderr, "c") == [
        ErrorMarker(line=5, column=3, message="expected ';' before 'return'")
    ]


def test_go_errors_without_error_prefix() -> None:
    stderr = "./main.go:7:2: undefined: fmt.Printn\n"

    assert extract_error_markers(stderr, "go") == [
        ErrorMarker(line=7, column=2, message="undefined: fmt.Printn")
    ]


def test_rust_error_uses_arrow_location() -> None:
    stderr = (
        "error[E0425]: cannot find value `x` in this scope\n"
        " --> src/main.rs:4:20\n"
        "  |\n"
    )

    assert extract_error_markers(stderr, "rust") == [
        ErrorMarker(line=4, column=20, message="cannot find value `x` in this scope")
    ]


def test_transpiler_position_for_react() -> None:
    stderr = "SyntaxError: main.jsx: Unexpected token (3:7)"

    assert extract_error_markers(stderr, "react") == [ErrorMarker(line=3, column=7, message=stderr)]


def test_output_without_positions_has_no_markers() -> None:
    assert extract_error_markers("Execution Error: Timeout", "python") == []
    assert extract_error_markers("Error: boom", "react") == []
    assert extract_error_markers("", "go") == []
