from pybuilder.core import use_plugin, init

use_plugin("python.core")
use_plugin("python.unittest")
use_plugin("python.install_dependencies")
use_plugin("python.coverage")
use_plugin("python.distutils")

name = "ordipy"
default_task = ["install_dependencies", "analyze", "publish"]
version = "0.1.0"
summary = (
    "Partial, constrained and weighted ordination (PCA, RDA, "
    "correspondence and log-ratio analysis) with permutation tests"
)

requires_python = ">=3.8"


@init
def set_properties(project):
    project.depends_on("numpy")
    project.depends_on("scipy")
    project.depends_on("pandas")
    project.build_depends_on("pytest")
    project.set_property("flake8_include_scripts", True)
    project.set_property("flake8_include_test_sources", True)
    project.set_property("flake8_break_build", False)
