import os
from setuptools import setup


base_dir = os.path.dirname(__file__)
about = {}
with open(os.path.join(base_dir, "signmatch", "__init__.py")) as f:
    for line in f:
        if line.startswith("__version__"):
            exec(line, about)
            break

try:
    long_description = open("README.rst", "r").read()
except Exception:
    long_description = None


setup(
    name="signmatch",
    version=about["__version__"],
    packages=[
        "signmatch",
        "signmatch.asn1",
        "signmatch.oracle",
        "signmatch.x509",
    ],
    package_data={"signmatch": ["py.typed"]},
    include_package_data=True,
    license="MIT",
    description=(
        "Verify the code signature of a file and match its signer against allowed"
        " publishers"
    ),
    long_description=long_description,
    install_requires=[
        "certvalidator>=0.11",
        "asn1crypto>=1.3,<2",
        "oscrypto>=1.1,<2",
        "mscerts",
        "typing_extensions>=4.6.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["signmatch=signmatch.cli:main"],
    },
    python_requires=">=3.8",
    keywords=["authenticode", "publisher", "distinguished name", "wintrust", "pe"],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Security :: Cryptography",
        "Topic :: System :: Software Distribution",
        "Topic :: Utilities",
    ],
)
