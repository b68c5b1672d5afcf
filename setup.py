import setuptools

# import os

# fn = os.path.join(os.path.dirname(__file__), "README.md")

# with open(fn, "r") as fh:
#    long_description = fh.read()

setuptools.setup(
    name="ordipy",
    version="0.1.0",
    description="Partial, constrained and weighted ordination with "
    "permutation testing",
    # long_description=long_description,
    # long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=["ordipy", "ordipy.*"]),
    install_requires=["numpy", "scipy", "pandas"],
    extras_require={"test": ["pytest"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
)
