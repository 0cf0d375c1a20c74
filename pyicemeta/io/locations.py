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
import uuid
from typing import Optional

from pyicemeta.typedef import EMPTY_DICT, Properties

WRITE_METADATA_PATH = "write.metadata.path"


class MetadataLocationProvider:
    """Hands out fresh locations for the manifests and manifest lists of a table.

    Every location contains a random UUID, so a file is never written twice and
    an aborted commit never clobbers a file that another commit references.
    """

    def __init__(self, table_location: str, table_properties: Properties = EMPTY_DICT):
        self.table_location = table_location.rstrip("/")
        self.table_properties = table_properties

    @property
    def metadata_prefix(self) -> str:
        if path := self.table_properties.get(WRITE_METADATA_PATH):
            return path.rstrip("/")
        return f"{self.table_location}/metadata"

    def new_manifest_location(self, commit_uuid: Optional[uuid.UUID] = None, num: int = 0) -> str:
        commit_uuid = commit_uuid or uuid.uuid4()
        return f"{self.metadata_prefix}/{commit_uuid}-m{num}.avro"

    def new_manifest_list_location(self, snapshot_id: int, attempt: int = 0, commit_uuid: Optional[uuid.UUID] = None) -> str:
        commit_uuid = commit_uuid or uuid.uuid4()
        return f"{self.metadata_prefix}/snap-{snapshot_id}-{attempt}-{commit_uuid}.avro"
