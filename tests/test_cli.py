"""
Tests for the strikectl command line
"""

from strikemd.cli.strikectl import build_parser, main


DOC = "# Title\n\nThe cat sat.\n"
ANNOTATED = '# Title\n\nThe cat <strike comment="tense"><del>sat</del><ins>sits</ins></strike>.\n'


class TestParser:
    """Tests for argument parsing."""

    def test_subcommands(self):
        """Test every command is registered."""
        parser = build_parser()
        for argv in (["checks"], ["blocks", "d.md"], ["show", "a.md"], ["validate", "a.md"],
                     ["recover", "a.md"], ["annotate", "d.md", "-c", "grammar"],
                     ["resolve", "a.md", "--accept", "0", "2"]):
            args = parser.parse_args(argv)
            assert args.command == argv[0]

    def test_no_command(self, capsys):
        """Test help is printed without a command."""
        assert main([]) == 0
        assert "strikectl" in capsys.readouterr().out


class TestCommands:
    """Tests for command behavior."""

    def test_checks(self, project_dir, capsys):
        """Test listing checks."""
        (project_dir / ".strikemd" / "checks.md").write_text("# house\nStyle.\n", encoding="utf-8")
        assert main(["checks", "--root", str(project_dir)]) == 0
        out = capsys.readouterr().out
        assert "grammar" in out
        assert "house" in out

    def test_blocks(self, temp_dir, capsys):
        """Test segmentation output."""
        doc = temp_dir / "doc.md"
        doc.write_text(DOC, encoding="utf-8")
        assert main(["blocks", str(doc)]) == 0
        out = capsys.readouterr().out
        assert "[2]" in out
        assert "2 blocks" in out

    def test_missing_file(self, temp_dir, capsys):
        """Test a missing input file fails cleanly."""
        assert main(["show", str(temp_dir / "nope.md")]) == 1
        assert "not found" in capsys.readouterr().out

    def test_annotate_with_replay(self, project_dir, capsys):
        """Test an offline run from a saved answer."""
        doc = project_dir / "doc.md"
        doc.write_text(DOC, encoding="utf-8")
        answer = project_dir / "answer.txt"
        answer.write_text('1 lgtm\n2 The cat <del comment="tense" replace-with="sits">sat</del>.\n',
                          encoding="utf-8")

        code = main(["annotate", str(doc), "-c", "grammar", "--mode", "full",
                     "--replay", str(answer)])
        assert code == 0
        out_path = project_dir / "doc.annotated.md"
        assert out_path.read_text(encoding="utf-8") == ANNOTATED
        assert "1 change(s)" in capsys.readouterr().out
        assert doc.read_text(encoding="utf-8") == DOC

    def test_annotate_failure(self, project_dir, capsys):
        """Test an unknown check is reported."""
        doc = project_dir / "doc.md"
        doc.write_text(DOC, encoding="utf-8")
        answer = project_dir / "answer.txt"
        answer.write_text("1 lgtm\n", encoding="utf-8")
        assert main(["annotate", str(doc), "-c", "missing", "--replay", str(answer)]) == 1
        assert "Unknown check" in capsys.readouterr().out

    def test_show(self, temp_dir, capsys):
        """Test listing pending changes."""
        path = temp_dir / "doc.annotated.md"
        path.write_text(ANNOTATED, encoding="utf-8")
        assert main(["show", str(path)]) == 0
        out = capsys.readouterr().out
        assert "tense" in out
        assert "1 pending change(s)" in out

    def test_validate(self, temp_dir, capsys):
        """Test exit status reflects problems."""
        good = temp_dir / "good.md"
        good.write_text(ANNOTATED, encoding="utf-8")
        bad = temp_dir / "bad.md"
        bad.write_text('x <del comment="r"></del>', encoding="utf-8")
        assert main(["validate", str(good)]) == 0
        assert main(["validate", str(bad)]) == 1
        assert "neither" in capsys.readouterr().out

    def test_recover(self, temp_dir, capsys):
        """Test printing the original text."""
        path = temp_dir / "doc.annotated.md"
        path.write_text(ANNOTATED, encoding="utf-8")
        assert main(["recover", str(path)]) == 0
        assert capsys.readouterr().out == DOC

    def test_resolve_accept(self, temp_dir):
        """Test accepting writes the resolved copy and leaves the source document alone."""
        (temp_dir / "doc.md").write_text("ORIGINAL DOC\n", encoding="utf-8")
        path = temp_dir / "doc.annotated.md"
        path.write_text(ANNOTATED, encoding="utf-8")
        assert main(["resolve", str(path), "--accept", "0"]) == 0
        assert (temp_dir / "doc.resolved.md").read_text(encoding="utf-8") == DOC.replace("sat", "sits")
        assert (temp_dir / "doc.md").read_text(encoding="utf-8") == "ORIGINAL DOC\n"
        assert path.read_text(encoding="utf-8") == DOC.replace("sat", "sits")

    def test_resolve_repeated_index(self, temp_dir):
        """Test an index given twice resolves one change only."""
        path = temp_dir / "doc.annotated.md"
        path.write_text(
            '<strike comment="1"><del>a</del><ins>A</ins></strike> '
            '<strike comment="2"><del>b</del><ins>B</ins></strike>\n',
            encoding="utf-8",
        )
        out = temp_dir / "o.md"
        assert main(["resolve", str(path), "--accept", "0", "0", "-o", str(out)]) == 0
        assert out.read_text(encoding="utf-8") == "A b\n"
        assert "<ins>B</ins>" in path.read_text(encoding="utf-8")

    def test_resolve_partial(self, temp_dir):
        """Test unresolved changes stay in the annotated file."""
        two = ANNOTATED + '\n<strike comment="end"><ins>Fin.</ins></strike>\n'
        path = temp_dir / "doc.annotated.md"
        path.write_text(two, encoding="utf-8")
        out = temp_dir / "plain.md"
        assert main(["resolve", str(path), "--reject", "0", "-o", str(out)]) == 0
        assert out.read_text(encoding="utf-8") == DOC + "\n\n"
        assert "Fin." in path.read_text(encoding="utf-8")

    def test_resolve_bad_index(self, temp_dir, capsys):
        """Test unknown indices fail the command."""
        path = temp_dir / "doc.annotated.md"
        path.write_text(ANNOTATED, encoding="utf-8")
        assert main(["resolve", str(path), "--accept", "7"]) == 1
        assert "index 7" in capsys.readouterr().out

    def test_checks_file_setting(self, project_dir, capsys):
        """Test the configured checks file is listed and usable for annotate."""
        (project_dir / "strikemd.yaml").write_text("checks_file: mychecks.md\n", encoding="utf-8")
        (project_dir / "mychecks.md").write_text("# custom\nHouse rules.\n", encoding="utf-8")
        assert main(["checks", "--root", str(project_dir)]) == 0
        assert "custom" in capsys.readouterr().out

        doc = project_dir / "doc.md"
        doc.write_text(DOC, encoding="utf-8")
        answer = project_dir / "answer.txt"
        answer.write_text("1 lgtm\n2 lgtm\n", encoding="utf-8")
        assert main(["annotate", str(doc), "-c", "custom", "--replay", str(answer)]) == 0
