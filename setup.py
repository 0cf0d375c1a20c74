# Licensed to the Apache Software Foundation (ASF) under one
# or more contributor license agreements.  See the NOTICE file
# distributed with this work for additional information
# regarding copyright ownership.  The ASF licenses this file
# to you under the Apache License, Version 2.0 (the
# "License"); you may not use this file except in compliance
# with the License.  You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
# KIND, either express or implied.  See the License for the
# specific language governing permissions and limitations
# under the License.

from setuptools import find_packages, setup

setup(
    name="pyicemeta",
    version="0.4.0",
    description="Apache Iceberg table metadata: manifests, manifest lists, snapshot commits and manifest compaction",
    license="Apache-2.0",
    python_requires=">=3.10",
    packages=find_packages(include=["pyicemeta*"]),
    include_package_data=True,
    install_requires=[
        "pydantic>=2.0,<3.0",
        "fastavro>=1.9",
        "fsspec>=2023.1.0",
        "requests>=2.20.0,<3.0.0",
        "tenacity>=8.2.3",
        "strictyaml>=1.7.0",
    ],
    extras_require={
        "s3fs": ["s3fs>=2023.1.0"],
        "test": [
            "pytest>=7.4",
            "pytest-mock>=3.12",
            "requests-mock>=1.11",
        ],
    },
)
