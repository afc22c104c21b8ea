from setuptools import setup

with open("README.md") as readme_file:
    readme = readme_file.read()

requirements = [
    "torch",
    "numpy",
    "pandas",
    "tqdm",
]

setup(
    name="torchscribe",
    version="0.1.0",
    description="A package for evaluating computation graphs over sequence minibatches and writing node outputs as text",
    long_description="A package for evaluating computation graphs over streamed minibatches of variable-length "
                     "sequences and writing the values of chosen output nodes as formatted, sequence-aware text. "
                     "Also resolves the inputs each output depends on, and can instrument a graph so the "
                     "gradients of its inputs and parameters get written alongside.",
    author="JohnMark Taylor",
    author_email="johnmarkedwardtaylor@gmail.com",
    url="https://github.com/johnmarktaylor91/torchscribe",
    packages=["torchscribe", "torchscribe.data_classes"],
    include_package_data=True,
    install_requires=requirements,
    license="GNU GPL v3",
    zip_safe=False,
    keywords="torch torchscribe output writer sequences",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Natural Language :: English",
        "Programming Language :: Python :: 3.9",
    ],
    extras_require={"dev": ["black[jupyter]", "pytest", "pre-commit"]},
)
