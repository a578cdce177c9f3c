import os
import re
from codecs import open

from setuptools import find_packages
from setuptools import setup

# Based on https://github.com/pypa/sampleproject/blob/main/setup.py
# and https://python-packaging-user-guide.readthedocs.org/

here = os.path.abspath(os.path.dirname(__file__))

with open(os.path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()
long_description_content_type = "text/markdown"

with open(os.path.join(here, "sniffproxy/version.py")) as f:
    match = re.search(r'VERSION = "(.+?)"', f.read())
    assert match
    VERSION = match.group(1)

setup(
    name="sniffproxy",
    version=VERSION,
    description="A transparent TCP proxy that dumps all traffic passing through it.",
    long_description=long_description,
    long_description_content_type=long_description_content_type,
    license="MIT",
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Operating System :: MacOS",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: Implementation :: CPython",
        "Topic :: Internet :: Proxy Servers",
        "Topic :: System :: Networking :: Monitoring",
        "Topic :: Software Development :: Testing",
    ],
    packages=find_packages(
        include=[
            "sniffproxy",
            "sniffproxy.*",
        ]
    ),
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "sniffproxy = sniffproxy.tools.main:sniffproxy",
        ],
    },
    python_requires=">=3.10",
    # https://packaging.python.org/en/latest/discussions/install-requires-vs-requirements/#install-requires
    # It is not considered best practice to use install_requires to pin dependencies to specific versions.
    install_requires=[
        "click>=7.0,<9",
        "flask>=1.1.1,<4",
        "ruamel.yaml>=0.16,<0.19",
    ],
    extras_require={
        "dev": [
            "pytest-cov>=2.7.1",
            "pytest-timeout>=1.3.3",
            "pytest>=6.1.0",
        ],
    },
)
