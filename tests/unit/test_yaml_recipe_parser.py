import textwrap
import pytest
from dprov.errors import RecipeError
from dprov.PARSERS.yaml_recipe_parser import YamlRecipeParser, load_recipe

def test_parse_from_string():
    content = """
    base_image: fedora:${RELEASE:-29}
    packages:
      - iproute
      - nodejs
      - git
    labels:
      version: 3
    """
    spec = YamlRecipeParser({}).parse_from_string(textwrap.dedent(content))
    assert spec.base_image == "fedora:29"
    assert spec.upgrade is True
    assert spec.packages == ["iproute", "nodejs", "git"]
    assert spec.labels == {"version": "3"}

def test_packages_as_string_and_context():
    content = "base_image: ubuntu:${RELEASE}\nupgrade: false\npackages: curl git\n"
    spec = YamlRecipeParser({"RELEASE": "22.04"}).parse_from_string(content)
    assert spec.base_image == "ubuntu:22.04"
    assert spec.upgrade is False
    assert spec.packages == ["curl", "git"]

@pytest.mark.parametrize("content", [
    "- not\n- a mapping\n",
    "base_image: fedora:29\nstages: 2\n",
    "packages: [git]\n",
    "base_image: [unclosed\n",
    "base_image: ${UNSET}\n",
])
def test_invalid_recipes(content):
    with pytest.raises(RecipeError):
        YamlRecipeParser({}).parse_from_string(content)

def test_load_recipe_dispatches_on_suffix(tmp_path, reveal_recipe):
    yaml_path = tmp_path / "reveal.yaml"
    yaml_path.write_text("base_image: fedora:29\npackages: [iproute, nodejs, git]\n")

    assert load_recipe(str(yaml_path), context={}) == load_recipe(str(reveal_recipe))

def test_load_recipe_missing_file(tmp_path):
    with pytest.raises(RecipeError, match="not found"):
        load_recipe(str(tmp_path / "nope"))
