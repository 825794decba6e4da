import pytest
from dprov.errors import RecipeError
from dprov.PARSERS.recipe_parser import RecipeParser

def test_parse_from_string():
    content = r"""
    # provisioning recipe
    ARG RELEASE=29
    FROM fedora:${RELEASE}
    LABEL maintainer="ops" purpose=slides
    RUN dnf -y upgrade \
        && dnf -y install git
    """
    parser = RecipeParser()
    instructions = parser.parse_from_string(content)

    inst_names = [i.instruction for i in instructions]
    assert inst_names == ["ARG", "FROM", "LABEL", "RUN"]

    label = next(i for i in instructions if i.instruction == "LABEL")
    assert label.arguments == ['maintainer="ops"', "purpose=slides"]

    # RUN with line continuation
    run_inst = next(i for i in instructions if i.instruction == "RUN")
    assert run_inst.arguments == ["dnf -y upgrade && dnf -y install git"]

def test_reference_recipe_layout(reveal_recipe):
    instructions = RecipeParser().parse(str(reveal_recipe))

    assert [i.instruction for i in instructions] == ["FROM", "RUN"]
    assert instructions[0].arguments == ["fedora:29"]
    assert instructions[1].arguments == ["dnf -y upgrade && dnf -y install iproute nodejs git"]
    assert instructions[1].line == 3

def test_comments_inside_continuation_are_dropped():
    content = "RUN dnf -y install \\\n# the shell\n    bash\n"
    instructions = RecipeParser().parse_from_string(content)
    assert instructions[0].arguments == ["dnf -y install bash"]

def test_lowercase_instruction_and_exec_form():
    instructions = RecipeParser().parse_from_string('from alpine:3.19\nrun ["apk", "add", "git"]\n')
    assert instructions[0].instruction == "FROM"
    assert instructions[1].arguments == ["apk", "add", "git"]

def test_trailing_continuation_closes_instruction():
    instructions = RecipeParser().parse_from_string("FROM fedora:29\nRUN dnf -y upgrade \\")
    assert instructions[-1].arguments == ["dnf -y upgrade"]

def test_blank_line_inside_continuation_is_skipped():
    content = "FROM fedora:29\nRUN dnf -y upgrade \\\n\n    && dnf -y install git\n"
    instructions = RecipeParser().parse_from_string(content)
    assert [i.instruction for i in instructions] == ["FROM", "RUN"]
    assert instructions[1].arguments == ["dnf -y upgrade && dnf -y install git"]
    assert instructions[1].line == 2

def test_text_that_is_not_an_instruction_is_rejected():
    with pytest.raises(RecipeError, match="line 2"):
        RecipeParser().parse_from_string("FROM fedora:29\n&& dnf -y install git\n")
