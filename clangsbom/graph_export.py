#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************************************************************************************************
# * BSD 3-Clause License
# *
# * Copyright (c) 2025, Mana Battery
# * All rights reserved.
# *
# * Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
# *
# * 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
# * 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
# *    documentation and/or other materials provided with the distribution.
# * 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
# *    software without specific prior written permission.
# *
# * THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
# * THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
# * CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
# * PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# * LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# * EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
# ****************************************************************************************************************************************************
"""Dependency graph assembly and export.

The graph is a rooted tree: one project node with every attributed package as
a direct child. Serialization uses the NetworkX writers, so the result can be
loaded by any tool that reads node-link JSON, GraphML or GEXF.
"""

import os
import json
import logging
from typing import Iterable, Optional

import networkx as nx
from networkx.readwrite import json_graph

from clangsbom.color_utils import print_error
from clangsbom.extractor import ExtractionResult

logger = logging.getLogger(__name__)

PROJECT_NODE_TYPE = "project"
COMPONENT_NODE_TYPE = "component"


def project_node_id(project_name: str, project_version: str) -> str:
    return f"{project_name}/{project_version}"


def build_dependency_graph(result: ExtractionResult, project_name: str, project_version: str, code_location_name: str) -> "nx.DiGraph[str]":
    """Build the project dependency tree from an extraction result.

    Node attributes (root):
        - type: "project"
        - name, version: Project name and version
        - code_location: Code location name the SBOM is reported under

    Node attributes (components, keyed by forge-namespaced external id):
        - type: "component"
        - name, version: Package name and version
        - forge: Forge name (e.g. "ubuntu")
        - external_id: ``<name>/<version>/<arch>``
        - bdio_id: BDIO-style component id

    Args:
        result: Output of ClangExtractor.extract()
        project_name: Name of the root project
        project_version: Version of the root project
        code_location_name: Code location name stored on the root

    Returns:
        Directed graph with edges from the root to every component
    """
    G: "nx.DiGraph[str]" = nx.DiGraph()
    root = project_node_id(project_name, project_version)
    G.add_node(root, type=PROJECT_NODE_TYPE, name=project_name, version=project_version, code_location=code_location_name)

    for record in sorted(result.dependencies, key=lambda r: r.external_id.namespaced):
        node = record.external_id.namespaced
        G.add_node(
            node,
            type=COMPONENT_NODE_TYPE,
            name=record.name,
            version=record.version,
            forge=record.forge.value,
            external_id=record.external_id.value,
            bdio_id=record.external_id.bdio_id,
        )
        G.add_edge(root, node)

    logger.info("Built dependency graph with %d components", G.number_of_nodes() - 1)
    return G


def export_dependency_graph(graph: "nx.DiGraph[str]", filename: str) -> Optional[str]:
    """Write the dependency graph to a file.

    Supports: JSON node-link data (.json), GraphML (.graphml), GEXF (.gexf).
    Any other extension is written as JSON with ".json" appended.

    Args:
        graph: Graph from build_dependency_graph()
        filename: Output filename (extension determines format)

    Returns:
        Path of the written file, None if writing failed
    """
    ext = os.path.splitext(filename)[1].lower()
    try:
        if ext == ".graphml":
            nx.write_graphml(graph, filename)
        elif ext == ".gexf":
            nx.write_gexf(graph, filename)
        else:
            if ext != ".json":
                logger.warning("Unsupported graph format: %s. Defaulting to JSON.", ext)
                filename = filename + ".json"
            with open(filename, "w", encoding="utf-8") as f:
                json.dump(json_graph.node_link_data(graph), f, indent=2)
    except (OSError, nx.NetworkXError) as e:
        logger.error("Failed to export graph: %s", e)
        print_error(f"Failed to export dependency graph: {e}")
        return None

    logger.info("Exported dependency graph to %s", filename)
    return filename


def write_unattributed_files(paths: Iterable[str], filename: str) -> bool:
    """Write unattributed file paths, sorted, one per line.

    Returns:
        True if the file was written
    """
    try:
        with open(filename, "w", encoding="utf-8") as f:
            for path in sorted(paths):
                f.write(f"{path}\n")
    except OSError as e:
        logger.error("Failed to write unattributed files: %s", e)
        print_error(f"Failed to write unattributed files: {e}")
        return False
    logger.info("Wrote unattributed files to %s", filename)
    return True
