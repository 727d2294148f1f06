#!/usr/bin/env python

import os

from setuptools import find_packages, setup

from davrepo._version import __version__

version = __version__

try:
    readme = open("README.md", "rt").read()
except IOError:
    readme = "(Readme file not found.)"

# 'setup.py upload' fails on Vista, because .pypirc is searched on 'HOME' path
if "HOME" not in os.environ and "HOMEPATH" in os.environ:
    os.environ.setdefault("HOME", os.environ.get("HOMEPATH", ""))
    print("Initializing HOME environment variable to '{}'".format(os.environ["HOME"]))

# lxml is used by davrepo.xml_tools when available (falls back to defusedxml)
install_requires = ["defusedxml", "json5", "PyYAML"]
tests_require = ["pytest"]

setup(
    name="davrepo",
    version=version,
    author="Martin Wendt, Ho Chun Wei",
    author_email="wsgidav@wwwendt.de",
    maintainer="Martin Wendt",
    maintainer_email="wsgidav@wwwendt.de",
    description="Uniform hierarchical resource repositories with typed properties",
    long_description=readme,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Filesystems",
    ],
    keywords="repository resource property webdav storage",
    license="MIT",
    packages=find_packages(exclude=["tests"]),
    install_requires=install_requires,
    tests_require=tests_require,
    python_requires=">=3.8",
    py_modules=[],
    zip_safe=False,
    extras_require={"test": tests_require, "lxml": ["lxml"]},
)
